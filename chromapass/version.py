"""ChromaPass Meta information.
   ChromaPass is a local password-vault engine with blind-save support.
"""
__title__ = 'chromapass'
__description__ = (
   'ChromaPass is a local password-vault engine: master-key lifecycle, '
   'auto-lock and encrypted credential envelopes.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/chromapass'
