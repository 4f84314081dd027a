"""Pytest config so that 'habitgrid', 'api', 'config' and 'core' import from the repo root."""
import os
import sys

SERVER_DIR = os.path.dirname(__file__)
if SERVER_DIR not in sys.path:
    sys.path.insert(0, SERVER_DIR)
