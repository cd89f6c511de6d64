# SPDX-License-Identifier: Apache-2.0

import json
import logging
from collections import namedtuple

_logger = logging.getLogger(__name__)

SOURCE_PUBLIC = 'public'
SOURCE_PRIVATE = 'private'

Mismatch = namedtuple('Mismatch', ['field', 'expected', 'actual', 'source'])

_PUBLIC_FIELDS = (
    ('Color', 'color'),
    ('Size', 'size'),
    ('Owner', 'owner'),
    ('AppraisedValue', 'appraised_value'),
)


class ReconciliationResult(namedtuple('ReconciliationResult',
                                      ['ok', 'mismatches'])):
    __slots__ = ()

    def fields(self):
        return [m.field for m in self.mismatches]


def price_from_private_data(private_data, asset_id):
    """Price carried by the last private write of the asset key.

    :param private_data: PrivateDataRecord, an iterable of them, or None
    :param asset_id: key of the asset properties
    :return: the Price, or None when nothing was written for the key
    """
    if private_data is None:
        return None
    if not isinstance(private_data, (list, tuple)):
        private_data = [private_data]

    price = None
    for record in private_data:
        for write in record.writes_for(asset_id):
            if write.is_delete:
                price = None
                continue
            try:
                price = json.loads(bytes(write.value).decode('utf-8')) \
                    .get('Price')
            except (ValueError, AttributeError):
                _logger.warning('private write of %s is not asset '
                                'properties', asset_id)
    return price


class PrivateDataReconciler(object):
    """Compares a read asset, and the private data written for it, with
    the values a caller expects. Never touches the ledger."""

    def reconcile(self, asset, private_data, expected, expected_price=None):
        """
        :param asset: AssetRecord read from the ledger, or None
        :param private_data: PrivateDataRecord(s) seen on the block feed,
            or None
        :param expected: AssetRecord holding the expected public values
        :param expected_price: expected private price; not checked if None
        :return: ReconciliationResult, with at most one mismatch per field;
            a Price mismatch names every differing source, e.g.
            "public+private"
        """
        mismatches = []
        if asset is None:
            mismatches.append(Mismatch('asset', expected.asset_id, None,
                                       SOURCE_PUBLIC))
            return ReconciliationResult(False, mismatches)

        for field, attr in _PUBLIC_FIELDS:
            want = getattr(expected, attr)
            got = getattr(asset, attr)
            if want != got:
                mismatches.append(Mismatch(field, want, got, SOURCE_PUBLIC))

        if expected_price is not None:
            written = price_from_private_data(private_data, asset.asset_id)
            sources = []
            # a read without private properties is judged on the write set
            if asset.price is not None or written is None:
                sources.append((SOURCE_PUBLIC, asset.price))
            if written is not None:
                sources.append((SOURCE_PRIVATE, written))
            wrong = [(source, price) for source, price in sources
                     if price != expected_price]
            # one entry for the field, the private write taking precedence
            if wrong:
                mismatches.append(Mismatch(
                    'Price', expected_price, wrong[-1][1],
                    '+'.join(source for source, _ in wrong)))

        for mismatch in mismatches:
            _logger.debug('asset %s: %s is %r, expected %r (%s)',
                          asset.asset_id, mismatch.field, mismatch.actual,
                          mismatch.expected, mismatch.source)
        return ReconciliationResult(not mismatches, mismatches)


def reconcile(asset, private_data, expected, expected_price=None):
    return PrivateDataReconciler().reconcile(asset, private_data, expected,
                                             expected_price)
