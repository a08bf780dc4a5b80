# Sales Performance Analytics - derivation engine
__version__ = "1.0.0"
