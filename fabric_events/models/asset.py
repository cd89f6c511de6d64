# SPDX-License-Identifier: Apache-2.0

import binascii
import json
import os

from fabric_events.util.consts import TRANSIENT_ASSET_PROPERTIES

SALT_SIZE = 16


def generate_salt(size=SALT_SIZE):
    """Random hex salt that hides low-entropy private values behind
    their on-ledger hash."""
    return binascii.hexlify(os.urandom(size)).decode()


class AssetProperties(object):
    """Private attributes of an asset, kept in the owner's collection."""

    object_type = 'asset_properties'

    def __init__(self, asset_id, price, salt=None):
        self._asset_id = asset_id
        self._price = price
        self._salt = salt if salt is not None else generate_salt()

    @property
    def asset_id(self):
        return self._asset_id

    @property
    def price(self):
        return self._price

    @property
    def salt(self):
        return self._salt

    def to_dict(self):
        return {
            'object_type': self.object_type,
            'asset_id': self._asset_id,
            'Price': self._price,
            'salt': self._salt,
        }

    def to_json(self):
        return json.dumps(self.to_dict()).encode()

    def to_transient(self):
        """Build the transient map carried by a private submission.

        :return: {'asset_properties': json bytes}
        """
        return {TRANSIENT_ASSET_PROPERTIES: self.to_json()}

    @classmethod
    def from_dict(cls, value):
        return cls(value.get('asset_id'), value.get('Price'),
                   salt=value.get('salt', ''))

    @classmethod
    def from_json(cls, raw):
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return cls.from_dict(json.loads(raw))

    def __eq__(self, other):
        return isinstance(other, AssetProperties) \
            and self.to_dict() == other.to_dict()

    def __repr__(self):
        return 'AssetProperties(asset_id={!r}, price={!r})'.format(
            self._asset_id, self._price)


class AssetRecord(object):
    """Public state of an asset as read from the ledger."""

    FIELDS = ('color', 'size', 'owner', 'appraised_value')

    def __init__(self, asset_id, color, size, owner, appraised_value,
                 properties=None):
        if not asset_id:
            raise ValueError('asset id cannot be empty')
        self._asset_id = asset_id
        self._color = color
        self._size = int(size)
        self._owner = owner
        self._appraised_value = int(appraised_value)
        self._properties = properties

    @property
    def asset_id(self):
        return self._asset_id

    @property
    def color(self):
        return self._color

    @property
    def size(self):
        return self._size

    @property
    def owner(self):
        return self._owner

    @property
    def appraised_value(self):
        return self._appraised_value

    @property
    def properties(self):
        """The attached AssetProperties or None."""
        return self._properties

    @property
    def price(self):
        if self._properties is None:
            return None
        return self._properties.price

    def replace(self, **fields):
        """Return a copy with the given public fields replaced.

        :raises ValueError: when asked to replace the asset id
        """
        if 'asset_id' in fields:
            raise ValueError('the asset id is immutable')
        unknown = set(fields) - set(self.FIELDS) - {'properties'}
        if unknown:
            raise ValueError('unknown asset fields: {}'.format(
                ', '.join(sorted(unknown))))

        values = {name: getattr(self, name) for name in self.FIELDS}
        values['properties'] = self._properties
        values.update(fields)
        return AssetRecord(self._asset_id, **values)

    def args(self):
        """Chaincode arguments for CreateAsset/UpdateAsset."""
        return [self._asset_id, self._color, str(self._size), self._owner,
                str(self._appraised_value)]

    def to_dict(self):
        value = {
            'ID': self._asset_id,
            'Color': self._color,
            'Size': self._size,
            'Owner': self._owner,
            'AppraisedValue': self._appraised_value,
        }
        if self._properties is not None:
            value['asset_properties'] = self._properties.to_dict()
        return value

    def to_json(self):
        return json.dumps(self.to_dict()).encode()

    @classmethod
    def from_dict(cls, value):
        try:
            properties = value.get('asset_properties')
            if properties is not None:
                properties = AssetProperties.from_dict(properties)
            return cls(value['ID'], value['Color'], value['Size'],
                       value['Owner'], value['AppraisedValue'],
                       properties=properties)
        except (KeyError, TypeError) as e:
            raise ValueError('not an asset record: {}'.format(e))

    @classmethod
    def from_json(cls, raw):
        """Parse the wire format returned by ReadAsset.

        :param raw: bytes or str
        :raises ValueError: when the payload is not an asset
        """
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return cls.from_dict(json.loads(raw))

    def __eq__(self, other):
        return isinstance(other, AssetRecord) \
            and self.to_dict() == other.to_dict()

    def __repr__(self):
        return ('AssetRecord(asset_id={!r}, color={!r}, size={!r}, '
                'owner={!r}, appraised_value={!r})').format(
            self._asset_id, self._color, self._size, self._owner,
            self._appraised_value)
