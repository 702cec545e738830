"""
Service layer: code generation, the URL manager facade and the delete worker.
"""
