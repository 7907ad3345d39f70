"""Quote, swap-build, submission and cleanup against Jupiter and Solana RPC."""
