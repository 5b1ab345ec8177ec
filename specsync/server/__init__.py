"""
SpecSync HTTP server (FastAPI app in specsync.server.app)
"""
