"""
PDF signing and verification against a local certificate store.

Signatures are appended as incremental updates, so earlier revisions and
signatures stay byte-for-byte intact. A signature is attributed to a
credential through an identity attribute in the certificate subject
(SERIALNUMBER by default). That attribute is a naming convention shared
by signer and verifier; it is not a trust decision, and no certificate
chain or revocation status is evaluated.
"""
