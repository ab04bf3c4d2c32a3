"""
Infrastructure Module
=====================

Cross-context infrastructure: database engine and session management.
"""
