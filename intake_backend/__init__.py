"""Backend du tunnel d'intake: paiements Stripe, catalogue, codes promo, synchro CRM, audit et session client."""
