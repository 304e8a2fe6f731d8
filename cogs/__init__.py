"""discord.py extensions loaded by the Support Core bot."""
