"""HTTP surface for the negotiation engine"""
