"""
blobsink: Group partitioned-log records into files and write them to object storage.

Records are accumulated per file name template, then each group is serialized
through an envelope/format/compression pipeline into one blob per flush.
"""

__version__ = "0.1.0"
