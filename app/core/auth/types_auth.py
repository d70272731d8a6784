from enum import Enum


class CompanyRole(str, Enum):
    """
    Roles carried by actor tokens. They are issued by the identity provider, the API only reads them.

    A company super admin administrates the bays of its company.
    A company admin may request bookings and, when added to a bay, act on the bay's bookings.
    """

    master_admin = "master_admin"
    company_super_admin = "company_super_admin"
    company_admin = "company_admin"

    def __str__(self) -> str:
        return f"{self.name}<{self.value}>"
