"""Treasury and custody coordinator for Solana and Polygon NFT projects."""

__version__ = "0.1.0"
