"""Diligence scoring service: turns investment materials into weighted, evidence-backed scores."""
