"""
AlertSleuth — LLM agent for security alert investigation.
"""

__version__ = "0.1.0"
