"""
Posting services: send pacing, media attachment and the tweet workflow.
"""
