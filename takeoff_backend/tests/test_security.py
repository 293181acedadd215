import unittest
from datetime import timedelta

import jwt

from takeoff_backend.errors import AuthError, ValidationError
from takeoff_backend.security import PasswordHasher, TokenService, peek_claims

SECRET = "unit-test-secret"


class PasswordHasherTests(unittest.TestCase):
    def setUp(self):
        self.hasher = PasswordHasher(rounds=4)

    def test_hash_and_verify(self):
        hashed = self.hasher.hash("pw123456")
        self.assertNotEqual(hashed, "pw123456")
        self.assertTrue(self.hasher.verify("pw123456", hashed))
        self.assertFalse(self.hasher.verify("pw1234567", hashed))

    def test_salt_differs_per_call(self):
        self.assertNotEqual(self.hasher.hash("same"), self.hasher.hash("same"))

    def test_work_factor_is_encoded_in_hash(self):
        self.assertTrue(PasswordHasher().hash("pw")[:7] in ("$2b$12$", "$2a$12$"))

    def test_password_over_72_bytes(self):
        hashed = self.hasher.hash("p" * 72)
        with self.assertRaises(ValidationError):
            self.hasher.hash("p" * 73)
        with self.assertRaises(ValidationError):
            self.hasher.hash("é" * 37)
        self.assertFalse(self.hasher.verify("p" * 100, hashed))

    def test_malformed_hash_does_not_verify(self):
        self.assertFalse(self.hasher.verify("pw123456", "not-a-bcrypt-hash"))


class TokenServiceTests(unittest.TestCase):
    def setUp(self):
        self.tokens = TokenService(SECRET)

    def test_issue_and_verify_round_trip(self):
        token = self.tokens.issue({"userId": "u1", "email": "a@x.com"})
        claims = self.tokens.verify(token)
        self.assertEqual(claims["userId"], "u1")
        self.assertEqual(claims["email"], "a@x.com")
        self.assertGreater(claims["exp"], claims["iat"])

    def test_default_ttl_is_seven_days(self):
        claims = self.tokens.verify(self.tokens.issue({"userId": "u1", "email": "a@x.com"}))
        self.assertEqual(claims["exp"] - claims["iat"], 7 * 24 * 3600)

    def test_expired_token_is_rejected(self):
        token = self.tokens.issue(
            {"userId": "u1", "email": "a@x.com"}, ttl=timedelta(seconds=-5)
        )
        with self.assertRaises(AuthError) as ctx:
            self.tokens.verify(token)
        self.assertEqual(ctx.exception.message, "Token expired")

    def test_token_signed_with_other_secret_is_rejected(self):
        other = TokenService("another-secret")
        token = other.issue({"userId": "u1", "email": "a@x.com"})
        with self.assertRaises(AuthError):
            self.tokens.verify(token)

    def test_tampered_payload_is_rejected(self):
        token = self.tokens.issue({"userId": "u1", "email": "a@x.com"})
        forged = jwt.encode(
            {**peek_claims(token), "userId": "u2"}, "guessed", algorithm="HS256"
        )
        header, _, signature = token.split(".")
        _, payload, _ = forged.split(".")
        with self.assertRaises(AuthError):
            self.tokens.verify(f"{header}.{payload}.{signature}")

    def test_garbage_is_rejected(self):
        with self.assertRaises(AuthError):
            self.tokens.verify("not.a.token")

    def test_missing_identity_claims_are_rejected(self):
        token = self.tokens.issue({"userId": "u1"})
        with self.assertRaises(AuthError):
            self.tokens.verify(token)

    def test_token_without_expiry_is_rejected(self):
        token = jwt.encode({"userId": "u1", "email": "a@x.com"}, SECRET, algorithm="HS256")
        with self.assertRaises(AuthError):
            self.tokens.verify(token)

    def test_missing_secret_fails_fast(self):
        with self.assertRaises(RuntimeError):
            TokenService(None)
        with self.assertRaises(RuntimeError):
            TokenService("")

    def test_peek_claims_does_not_need_the_secret(self):
        token = self.tokens.issue({"userId": "u1", "email": "a@x.com"})
        self.assertEqual(peek_claims(token)["email"], "a@x.com")
        self.assertEqual(peek_claims("garbage"), {})


if __name__ == "__main__":
    unittest.main()
