# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Eliot log types for the certificate authority.
"""

from eliot import Field, ActionType, MessageType

NAME = Field.for_types(
    u"name", [str],
    u"The logical name of the bundle being issued, loaded or saved.")

PARENT_NAME = Field.for_types(
    u"parent_name", [str, type(None)],
    u"The logical name of the signing bundle, if any.")

IS_CA = Field.for_types(
    u"is_ca", [bool],
    u"Whether the certificate is a certificate authority.")

PATH_LENGTH = Field.for_types(
    u"max_path_length", [int],
    u"The requested path length constraint, -1 meaning unconstrained.")

KEY_SIZE = Field.for_types(
    u"private_key_size", [int],
    u"The size in bits of the generated RSA key.")

ISSUER = Field.for_types(
    u"issuer", [str],
    u"The common name of the issuing certificate.")

SERIAL = Field(
    u"serial", lambda serial: u"{:x}".format(serial),
    u"The serial number of the issued certificate, in hexadecimal.")

PATH = Field.for_types(
    u"path", [str],
    u"The directory where bundle files are stored.")

OVERWRITE = Field.for_types(
    u"overwrite", [bool],
    u"Whether existing files may be replaced.")

OUTCOME = Field(
    u"outcome", lambda outcome: outcome.name,
    u"The outcome of an issuance.")

REASON = Field.for_types(
    u"reason", [str],
    u"A description of why an issuance did not create a bundle.")

ISSUE = ActionType(
    u"stockade:ca:issue",
    [NAME, PARENT_NAME],
    [OUTCOME],
    u"Issue and store a new certificate bundle.")

SIGN = ActionType(
    u"stockade:ca:sign",
    [NAME, IS_CA, PATH_LENGTH, KEY_SIZE],
    [ISSUER, SERIAL],
    u"Generate a key pair and sign a certificate for it.")

LOAD = ActionType(
    u"stockade:ca:store:load",
    [NAME, PATH],
    [],
    u"Load a bundle from a store.")

SAVE = ActionType(
    u"stockade:ca:store:save",
    [NAME, PATH, OVERWRITE],
    [],
    u"Save a bundle to a store.")

ISSUANCE_REJECTED = MessageType(
    u"stockade:ca:issue:rejected",
    [NAME, OUTCOME, REASON],
    u"An issuance finished without creating a bundle.")
