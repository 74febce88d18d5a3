"""LTI 1.3 / LTI Advantage integration."""
