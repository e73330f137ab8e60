"""
Core translation modules: providers, the batch pipeline and context helpers.
"""
