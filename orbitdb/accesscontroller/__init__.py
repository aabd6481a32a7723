"""Access controllers (ipfs, orbitdb, simple) and their manifests."""

__version__ = "0.1.0"