"""Infrastructure layer: builder state, history, graph engine, document loading.

This layer depends on the domain layer and third-party libs (NetworkX,
pluggy). It must never import from services, commands, or output.
"""
