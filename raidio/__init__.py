"""Block-device I/O benchmark with hardware RAID setup through storcli."""

__version__ = "0.1.0"