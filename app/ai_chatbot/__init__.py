"""
AI query package
Question planning over monthly snapshots and answer generation via LLM providers
"""
