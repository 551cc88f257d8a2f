"""Ingestao de combat logs e segmentacao de partidas de arena."""
