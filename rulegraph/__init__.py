"""
rulegraph — a node-graph editor and compiler for badge award rules.

Conditions and logic combinators are wired on a canvas into one action; the
compiler flattens that graph into the JSON rule tree the evaluation engine
runs, and the decompiler lays a saved rule back out as a graph.
"""
__version__ = "0.1.0"
