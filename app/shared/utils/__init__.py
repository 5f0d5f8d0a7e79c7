"""
Small helpers shared by the domain and storage layers.
"""
