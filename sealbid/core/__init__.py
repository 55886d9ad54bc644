"""Auction lifecycle coordination: configuration, errors, identities and protocol steps"""
