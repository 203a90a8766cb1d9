"""resources/ -- Generic JSON collections served behind the access gate.

Layer rule: resources/ may import from auth/ (errors, engine helpers) but never
from api/. It knows nothing about tokens or users beyond refusing to serve the
credential table.
"""
