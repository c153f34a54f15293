"""
Pytest configuration for xnft tests.
"""
import sys
import os

# Ensure `import xnft...` works without installing the package
_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
_SRC_DIR = os.path.join(_ROOT, 'src')

for _p in (_ROOT, _SRC_DIR):
	if _p not in sys.path:
		sys.path.insert(0, _p)
