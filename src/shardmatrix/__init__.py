"""shardmatrix: test shard resolution and CI runner-matrix scheduling."""

__version__ = "0.1.0"
