# printhub/routers/__init__.py
"""HTTP routers, mounted under API_PREFIX by printhub.main.create_app()."""
