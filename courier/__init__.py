"""
courier — import SMS/MMS backups into a live message store without duplicates.
"""

__version__ = '1.0.0'
