"""Routing — compiled route table resolving a pathname to a route id.

Route ids double as path patterns (``/users/{user_id}``) and are compiled
into an immutable trie when a bundle is created.
"""
