from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LoginSelectors:
    """
    The login flow is a web page; selectors may change over time.
    Keep all UI selectors/text hooks here for easy maintenance.
    """

    # Cookie / privacy consent (Didomi-style banner, with generic fallbacks)
    consent_banner: str = (
        "#didomi-notice, #didomi-popup, #onetrust-banner-sdk, "
        '[id*="cookie-banner" i], [class*="cookie-banner" i], [aria-label*="cookies" i][role="dialog"]'
    )
    consent_accept: str = (
        '#didomi-notice-agree-button, #onetrust-accept-btn-handler, button:has-text("Accepter"), '
        'button:has-text("Tout accepter"), button:has-text("Accept all")'
    )
    consent_reject: str = (
        '#didomi-notice-disagree-button, #onetrust-reject-all-handler, button:has-text("Continuer sans accepter"), '
        'button:has-text("Tout refuser"), button:has-text("Refuser"), button:has-text("Reject all")'
    )

    # Credentials
    username_input: str = (
        'input[name="username"], input#username, input[name="login"], input[type="email"], '
        'input[autocomplete="username"]'
    )
    password_input: str = 'input[type="password"], input[name="password"], input[autocomplete="current-password"]'
    credentials_submit: str = (
        'button[type="submit"], input[type="submit"], button:has-text("Se connecter"), '
        'button:has-text("Connexion"), button:has-text("Continuer"), button:has-text("Suivant")'
    )
    # Messages shown on the form after a rejected submit.
    invalid_credentials_texts: tuple[str, ...] = (
        "identifiant ou mot de passe incorrect",
        "identifiants incorrects",
        "mot de passe incorrect",
        "invalid username or password",
    )
    account_locked_texts: tuple[str, ...] = (
        "compte est bloqué",
        "compte bloqué",
        "trop de tentatives",
        "too many attempts",
    )

    # One-time code (TOTP)
    otp_input: str = (
        'input[autocomplete="one-time-code"], input[name*="otp" i], input[id*="otp" i], '
        'input[name*="totp" i], input[name="code"][inputmode="numeric"]'
    )
    otp_submit: str = (
        'button[type="submit"], button:has-text("Valider"), button:has-text("Vérifier"), button:has-text("Continuer")'
    )

    # Trusted device ("Faire confiance à cet appareil ?")
    trusted_device_prompt: str = (
        '[data-testid="trusted-device"], form:has-text("appareil de confiance"), '
        'form:has-text("Faire confiance à cet appareil")'
    )
    trusted_device_confirm: str = (
        'button:has-text("Faire confiance"), button:has-text("Oui"), button:has-text("Trust this device")'
    )
