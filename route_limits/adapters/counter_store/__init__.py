"""Counter storage adapters.

The evaluator depends only on the abstract store, so file and table backends
are interchangeable from the caller's point of view.
"""
