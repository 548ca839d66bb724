"""Scoring of engine manifests against host hardware."""