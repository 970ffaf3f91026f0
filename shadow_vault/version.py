"""ShadowVault Meta information.
   ShadowVault derives wallet-bound keys, encrypts vault entries and
   verifies password integrity against on-chain commitments.
"""
__title__ = 'shadow_vault'
__description__ = (
   'Wallet-derived encryption and zero-knowledge integrity '
   'verification for password vault entries.'
)
__version__ = '0.1.0'
__license__ = 'Apache-2.0'
