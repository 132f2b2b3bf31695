"""
Symbol detection test suite

Structure:
- unit/: Unit tests for individual pipeline stages
- integration/: End-to-end tests through the command line
"""
