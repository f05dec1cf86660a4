"""SecureVault Meta information.
   SecureVault keeps password records encrypted under a master passphrase.
"""
__title__ = 'securevault'
__description__ = (
   'SecureVault keeps password records encrypted at rest '
   'under a key derived from a master passphrase.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 SecureVault Authors'
__author__ = 'SecureVault Authors'
__author_email__ = 'securevault@example.org'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/securevault/securevault'
