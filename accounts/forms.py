from django import forms
from django.contrib.auth.forms import UserCreationForm
from django.contrib.auth.models import User

OWNER = "owner"
CUSTOMER = "customer"


class SignUpForm(UserCreationForm):
    """
    Account creation for shoppers and store owners.
    Name and email travel to the payment gateway with each order.
    """
    ROLE_CHOICES = [(CUSTOMER, "Customer"), (OWNER, "Store owner")]

    first_name = forms.CharField(max_length=150, required=False)
    last_name = forms.CharField(max_length=150, required=False)
    email = forms.EmailField(required=True)
    role = forms.ChoiceField(choices=ROLE_CHOICES, widget=forms.RadioSelect, initial=CUSTOMER)

    class Meta:
        model = User
        fields = ("username", "first_name", "last_name", "email", "role", "password1", "password2")

    def clean_email(self):
        email = self.cleaned_data["email"].strip().lower()
        if User.objects.filter(email__iexact=email).exists():
            raise forms.ValidationError("An account with this email already exists.")
        return email
