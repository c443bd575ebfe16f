"""
Core application engine for resolving, downloading and installing titles.

`LibraryService` is the session coordinator. It delegates source ordering to
`SourceResolver`, retrieval and fallback to `ArtifactFetcher`, and keeps the
`LibraryIndexer` in step with what `PlacementEngine` writes.
"""
