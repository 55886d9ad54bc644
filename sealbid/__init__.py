"""
Sealbid

Client-side coordinator for sealed-bid auctions settled on a ledger:
- Encrypted bidding through an attesting encryption service
- Sequential encrypted winner determination
- Permissioned decryption and proof-verified settlement
"""
