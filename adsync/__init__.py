"""
AdSync - Meta Ads synchronization pipeline
"""
__version__ = "1.0.0"
