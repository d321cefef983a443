"""Magazine marketplace — order and payment processing.

Publishers list magazines, retailers buy them in bulk at wholesale prices.
This package owns the purchase path: inventory reservation, the Order
lifecycle, checkout sessions on the external payment gateway, payment
confirmation through webhooks or polling, refunds and reconciliation of
abandoned checkouts.
"""
