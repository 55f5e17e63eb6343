"""
Mention Completions
-------------------
Multi-model chat completion orchestration: @mention routing, concurrent provider streams and tool agents.
"""
