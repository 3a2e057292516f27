"""
Types shared between the widget engine and its hosts.
"""
