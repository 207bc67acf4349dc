"""passvault - A local credential vault.
Stores items holding username/password credentials, each password encrypted
with a key derived from one master passphrase, via pynacl.
"""

__version__ = "1.0.0"
