"""overdub - record voice takes and superimpose them into one mixdown."""

__version__ = "0.1.0"
