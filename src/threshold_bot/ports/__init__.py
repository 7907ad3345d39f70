from .chain import AccountSnapshot, ChainGateway, Confirmation, LatestBlockhash

__all__ = ["AccountSnapshot", "ChainGateway", "Confirmation", "LatestBlockhash"]
