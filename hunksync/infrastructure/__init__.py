"""Infrastructure components for hunksync.

This layer handles external system interactions:
- git/ - Process runner for the git executable and patch synthesis
"""
