"""Routing: the precedence-ordered mount table and mountable sub-routers.

``RouteTable`` holds the pipeline's ``RouteEntry`` sequence, compiled into
one first-match-wins chain per protocol surface. ``SubRouter`` is a
trie-matched router that mounts on that table like any other sub-app.
"""
