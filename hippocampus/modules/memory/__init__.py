"""
Memory pipeline: bank resolution, fusion/re-ranking, weight profiles,
and the recall/capture handlers that drive them.
"""
