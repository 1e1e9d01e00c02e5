"""PwVault Meta information.
   PwVault keeps password-vault records encrypted and governs the
   lifecycle of the authenticated session that unlocks them.
"""
__title__ = 'pwvault'
__description__ = (
   'Password-vault encryption engine and session lifecycle manager '
   'with biometric re-entry support.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 PwVault Developers'
__author__ = 'PwVault Developers'
__author_email__ = 'dev@pwvault.example'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/pwvault/pwvault'
