"""
Dandelion: Solana SPL token mass distribution.

Distributes a token held by a payer wallet to generated addresses in
batched transactions and reports successes, failures and SOL spent.
"""

__version__ = "0.1.0"
