"""
codedrop - one-time secret drops redeemed with a short numeric code.
"""

__version__ = "1.0.0"
