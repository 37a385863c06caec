"""Chain access for the referral worker.

Protocols for the event source, referral ledger and funder wallet, plus
their web3.py implementations and the block explorer client.
"""
