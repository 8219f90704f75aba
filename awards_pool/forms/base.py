from flask_wtf import FlaskForm


class JSONForm(FlaskForm):
    """FlaskForm fed from JSON request bodies; API clients carry no CSRF token"""

    class Meta:
        csrf = False

    def submitted(self, name):
        """Field data when the key was present in the request, else None"""
        field = self[name]
        return field.data if getattr(field, "raw_data", None) else None

    def first_error(self):
        for field_name, errors in self.errors.items():
            if errors:
                return f"{field_name}: {errors[0]}"
        return "Invalid request"
