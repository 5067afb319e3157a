"""
Briefrr CLI - summary drawer and key management in the terminal
"""
