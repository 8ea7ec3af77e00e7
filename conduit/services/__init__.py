# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for one concern:
#
#   slug_service      — unique slug generation from titles
#   profile_service   — viewer-relative profile projection
#   article_service   — list / feed / CRUD for Article
#   relation_service  — favorite and follow edges, favorites_count
#   comment_service   — comments on an Article
#   user_service      — registration and profile updates
#   tag_service       — cached tag vocabulary
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Failures are raised as ``conduit.errors``
# exceptions.
