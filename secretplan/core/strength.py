from abc import ABC, abstractmethod


class StrengthCalculator(ABC):
    """Scores a password on a 0-100 scale"""

    @abstractmethod
    def calculate_strength(self, password: str) -> int:
        pass


class SimpleStrengthCalculator(StrengthCalculator):
    """Length bands plus character-class variety"""

    def calculate_strength(self, password: str) -> int:
        return self.evaluate(password)["score"]

    def evaluate(self, password: str) -> dict:
        """Check password strength and return score + feedback"""
        if not password:
            return {"score": 0, "strength": "Weak", "feedback": ["Password is empty"]}

        score = 0
        feedback = []

        length = len(password)
        has_lower = any(c.islower() for c in password)
        has_upper = any(c.isupper() for c in password)
        has_digit = any(c.isdigit() for c in password)
        has_symbol = any(not c.isalnum() for c in password)

        if length >= 16:
            score += 40
        elif length >= 12:
            score += 30
        elif length >= 8:
            score += 20
        else:
            score += 10
            feedback.append("Password too short (min 8 chars)")

        if has_lower:
            score += 15
        else:
            feedback.append("Add lowercase letters")

        if has_upper:
            score += 15
        else:
            feedback.append("Add uppercase letters")

        if has_digit:
            score += 15
        else:
            feedback.append("Add numbers")

        if has_symbol:
            score += 15
        else:
            feedback.append("Add symbols (!@#$...)")

        if score >= 80:
            strength = "Strong"
        elif score >= 60:
            strength = "Good"
        elif score >= 40:
            strength = "Fair"
        else:
            strength = "Weak"

        return {"score": score, "strength": strength, "feedback": feedback}
