"""PhishSim - phishing simulation platform for security awareness training."""

__version__ = "1.0.0"
