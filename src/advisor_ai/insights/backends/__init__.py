"""Analysis backends sharing the AnalysisBackend contract."""
