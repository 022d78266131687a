"""
Shared service utilities.

- http.py - ``requests`` session with default timeout and User-Agent
"""
