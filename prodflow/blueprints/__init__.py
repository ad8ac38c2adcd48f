"""
Production Workflow Service
Blueprint registry.
"""
