"""
Status dashboard for migration runs
"""
