"""
Feature modules live under this package.

Keep module boundaries clean: each module should own its routes/models,
while reusing platform primitives (auth, storage, DB session).
"""
