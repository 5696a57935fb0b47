"""
Collaborator protocols and shared types.
"""
