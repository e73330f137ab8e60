"""
Web API: Flask routes, batch job state and WebSocket progress
"""
