# Application Scheduling Package
