"""
NoteGraph — entity resolution and consistency engine for a notes knowledge graph.

Free-text notes are analysed by an external extractor; the structured output
(entities, tasks, knowledge articles) is merged into a persistent local graph
by the modules in `notegraph.kg` and orchestrated by `notegraph.services`.
"""

__version__ = "0.1.0"
